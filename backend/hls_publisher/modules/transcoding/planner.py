"""Quality planning: which renditions to encode for a given source.

The plan is the catalog, filtered by the requested selection and by the
no-upscaling rule, in catalog (ascending) order.
"""

import json
import logging
import re
from typing import Sequence, Union

from hls_publisher.modules.transcoding.models import (
    DEFAULT_QUALITY_SELECTION,
    QUALITY_CATALOG,
    QualityPlan,
)

logger = logging.getLogger(__name__)

QualitySelection = Union[str, Sequence[Union[str, int]], None]

_UNIT_SUFFIX = re.compile(r"p$", re.IGNORECASE)


def parse_quality_selection(raw: QualitySelection) -> list[int]:
    """Turn a requested selection into a list of heights.

    Accepts a list of tokens (``"720p"``, ``"720"``, ``720``) or a JSON
    encoded list. Missing or malformed input selects every quality; tokens
    that do not parse as integers are dropped.
    """
    tokens: Sequence[Union[str, int]] = DEFAULT_QUALITY_SELECTION
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Could not parse qualities {raw!r}, using all: {e}")
        else:
            if isinstance(decoded, list):
                tokens = decoded
            else:
                logger.warning(f"Qualities {raw!r} is not a list, using all")
    elif raw is not None:
        tokens = raw

    heights = []
    for token in tokens:
        if isinstance(token, bool):
            continue
        if isinstance(token, int):
            heights.append(token)
            continue
        if not isinstance(token, str):
            continue
        cleaned = _UNIT_SUFFIX.sub("", token.strip())
        try:
            heights.append(int(cleaned))
        except ValueError:
            logger.debug(f"Ignoring unparseable quality token {token!r}")
    return heights


def plan_qualities(selection: Sequence[int], source_height: int) -> QualityPlan:
    """Compute the rendition ladder for a source.

    Args:
        selection: Requested heights
        source_height: Probed height of the source video

    Returns:
        Plan in catalog order. A level equal to the source height is kept;
        anything taller would be an upscale and is dropped.
    """
    wanted = set(selection)
    selected = [level for level in QUALITY_CATALOG if level.id in wanted]

    levels = []
    for level in selected:
        if level.height > source_height:
            logger.info(
                f"Skipping {level.label} (target: {level.height}px, "
                f"source: {source_height}px) to prevent upscaling"
            )
            continue
        levels.append(level)

    if len(selected) > len(levels):
        logger.info(
            f"Filtered out {len(selected) - len(levels)} quality level(s) "
            "that would require upscaling"
        )

    return QualityPlan(levels=tuple(levels))


def build_quality_plan(raw: QualitySelection, source_height: int) -> QualityPlan:
    """Parse a raw selection and plan it against the source height."""
    selection = parse_quality_selection(raw)
    plan = plan_qualities(selection, source_height)
    logger.info(
        f"Selected qualities: {', '.join(str(h) for h in selection)}; "
        f"will transcode {len(plan)} quality levels"
    )
    return plan
