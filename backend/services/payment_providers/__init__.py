"""Payment provider configuration and incoming webhook handling."""
