"""chatmover: chat export to Mattermost bulk-import conversion."""

__version__ = "0.1.0"
