"""calloutchat: stream AI chat answers into documents as callout blocks."""

__version__ = "0.1.0"
