"""EMGurus content review and publication service."""
