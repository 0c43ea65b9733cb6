"""Organization crawl package."""

from .crawler import DependencyCrawler
from .phase import CrawlPhase

__all__ = ["CrawlPhase", "DependencyCrawler"]
