"""Agent implementations for the autoblog pipeline."""

from autoblog.agents.topic_selector import TopicSelectorAgent
from autoblog.agents.outliner import OutlineAgent
from autoblog.agents.researcher import ResearcherAgent
from autoblog.agents.writer import WriterAgent
from autoblog.agents.refiner import PolishAgent, RefinementLoop
from autoblog.agents.metadata import MetadataAgent
from autoblog.agents.validator import ValidatorAgent
from autoblog.agents.illustrator import IllustratorAgent
from autoblog.agents.publisher import PublisherAgent
from autoblog.agents.tool_post import ToolPostAgent

__all__ = [
    "TopicSelectorAgent",
    "OutlineAgent",
    "ResearcherAgent",
    "WriterAgent",
    "RefinementLoop",
    "PolishAgent",
    "MetadataAgent",
    "ValidatorAgent",
    "IllustratorAgent",
    "PublisherAgent",
    "ToolPostAgent",
]
