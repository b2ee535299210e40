"""Core domain package for newsrelay.

Core contains canonicalization, deduplication, selection and broadcast logic
without any Telegram, RSS or storage-specific code.
"""
