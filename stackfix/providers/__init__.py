"""Cloud provider APIs used by fixes."""

from .aws import AwsProvider

__all__ = ["AwsProvider"]
