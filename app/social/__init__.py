"""Cross-posting marketplace items to social media."""

from .manager import InvalidSocialAccountError, SocialMediaManager
from .publishers import SocialPublisher, build_publishers, register_publisher
from .repository import InMemorySocialRepository, SocialRepository
from .schemas import Platform, PostStatus, SocialAccount, SocialPost

__all__ = [
    "InMemorySocialRepository",
    "InvalidSocialAccountError",
    "Platform",
    "PostStatus",
    "SocialAccount",
    "SocialMediaManager",
    "SocialPost",
    "SocialPublisher",
    "SocialRepository",
    "build_publishers",
    "register_publisher",
]
