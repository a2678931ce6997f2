"""
Tether Utilities Module

Common helpers shared by the relay components.
"""

from .keys import SessionCredentials, keys_match, new_session_credentials, random_key

__all__ = [
    'SessionCredentials',
    'keys_match',
    'new_session_credentials',
    'random_key'
]
