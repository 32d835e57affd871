"""Timeline engine configuration from environment variables."""

import os


class TimelineConfig:
    """Settings for stage task generation and change watching."""

    STAGE_TASK_ESTIMATED_HOURS = int(os.environ.get("STAGE_TASK_ESTIMATED_HOURS", "4"))
    STAGE_TAG_PREFIX = os.environ.get("STAGE_TAG_PREFIX", "stage:")
    TASK_WATCH_TABLE = os.environ.get("TASK_WATCH_TABLE", "tasks")

    @classmethod
    def stage_tag(cls, stage_id: str) -> str:
        """Correlation tag linking a work item back to its stage."""
        return f"{cls.STAGE_TAG_PREFIX}{stage_id}"

    @classmethod
    def stage_id_from_tag(cls, tag: str):
        """Return the stage id encoded in a correlation tag, or None."""
        if isinstance(tag, str) and tag.startswith(cls.STAGE_TAG_PREFIX):
            return tag[len(cls.STAGE_TAG_PREFIX):] or None
        return None
