"""
APIM Subscription Key Backup & Restore

Exports Azure API Management subscription keys to local JSON snapshots and
recreates them in the same or a different APIM instance:
- backup / list: pull subscriptions plus their secrets
- restore: recreate subscriptions under their original entity names
- delete: tear down subscriptions (built-in master key preserved by default)
- compare: verify two snapshots carry the same secret material
"""

__version__ = "0.1.0"
