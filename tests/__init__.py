"""SculptEmbed test package."""
