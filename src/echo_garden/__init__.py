"""Echo Garden: ranking, personalization and moderation engine for a social audio-clip platform."""
