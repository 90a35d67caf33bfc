"""Version requirements, edit intents and resolution."""
