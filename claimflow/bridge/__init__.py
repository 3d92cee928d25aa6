"""Bridge layer between claimflow and the outside world.

- ``pii_cipher``: field-level encryption of claimant PII (PyNaCl)
- ``agent_client``: the agent invocation contract and its HTTP implementation
"""
