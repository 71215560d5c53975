"""Vault Unsealer Meta information.
   Vault Unsealer initializes a vault server and unseals it using
   shares kept in an external keystore.
"""
__title__ = 'vault_unsealer'
__description__ = (
   'Initialize and unseal a vault server with shares '
   'persisted in a pluggable keystore.'
)
__version__ = '0.3.0'
__license__ = 'Apache-2.0'
