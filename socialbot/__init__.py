"""SocialBot: trend discovery, post generation and Facebook Page publishing."""

__version__ = "0.1.0"
