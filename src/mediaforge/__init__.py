"""MediaForge AI backend: credits, referrals and notifications."""

__version__ = "1.0.0"
