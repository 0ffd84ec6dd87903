"""
chains - RPC access for dexwatch.

- providers.py: JSON-RPC over httpx with endpoint failover
- gas.py: gas price source
"""
