"""
Wallet Persona: behavioral archetype scoring for Ethereum wallets.

Aggregates wallet activity from several unreliable upstream providers,
distills it into a six-metric feature vector, and classifies each wallet
against the stored population into Explorer / Diamond / Whale / Degen.
"""

__version__ = "0.1.0"
