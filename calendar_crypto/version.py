"""Calendar Crypto Meta information.
   Calendar Crypto keeps calendar events, tasks and settings opaque to the
   server by encrypting them client-side.
"""
__title__ = 'calendar_crypto'
__description__ = (
   'Client-side key derivation and record encryption '
   'for end-to-end encrypted calendars.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
