"""WeFix phone verification service."""
