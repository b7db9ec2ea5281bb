"""Credstore Meta information.
   Credstore keeps connection secrets encrypted inside a local key-value store.
"""
__title__ = 'credstore'
__description__ = (
   'Credstore keeps connection secrets encrypted '
   'inside a local key-value store.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 Credstore Developers'
__author__ = 'Credstore Developers'
__license__ = 'Apache-2.0'
