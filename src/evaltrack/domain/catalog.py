"""
Test type catalog.

Each test type evaluates a different aspect of the product under test. The
coarse category splits "greenfield" work (the product generates from scratch)
from "brownfield" work (the product edits existing board content).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from evaltrack.domain.run import DEFAULT_TEST_TYPE


@dataclass(frozen=True)
class EvalTestType:
    id: str
    name: str
    short_name: str
    description: str
    prompt_structure: str


TEST_TYPES: Dict[str, EvalTestType] = {
    "ai-generated-iteration": EvalTestType(
        id="ai-generated-iteration",
        name="Iteration from AI Generated Result",
        short_name="AI Generated",
        description=(
            "How well the product iterates on its own generated content. V1 is created "
            "from scratch, V2 and V3 refine based on feedback."
        ),
        prompt_structure="V1: Initial generation prompt | V2: Feedback on V1 | V3: Refinement of V2",
    ),
    "existing-content-iteration": EvalTestType(
        id="existing-content-iteration",
        name="Iteration from Existing Board Content",
        short_name="Existing Content",
        description=(
            "How well the product works with and improves existing content on the board."
        ),
        prompt_structure="V0: Existing content | V1: First edit | V2: Second edit | V3: Third edit",
    ),
    "conversational-flow": EvalTestType(
        id="conversational-flow",
        name="Conversational Flow",
        short_name="Conversation",
        description="Multi-turn conversation quality: context retention and follow-ups.",
        prompt_structure="Series of back-and-forth exchanges testing dialogue quality",
    ),
    "image-to-prototype": EvalTestType(
        id="image-to-prototype",
        name="Image to Prototype Conversion",
        short_name="Image to Prototype",
        description="Converting a source image into an interactive prototype.",
        prompt_structure="V0: Source image | V1: Generated prototype with requested additions",
    ),
}

TEST_TYPE_ORDER = [
    "ai-generated-iteration",
    "existing-content-iteration",
    "conversational-flow",
    "image-to-prototype",
]

BROWNFIELD_TEST_TYPES = frozenset({"existing-content-iteration"})


def all_test_types() -> List[EvalTestType]:
    return [TEST_TYPES[t] for t in TEST_TYPE_ORDER]


def category_for_test_type(test_type_id: Optional[str]) -> str:
    if (test_type_id or DEFAULT_TEST_TYPE) in BROWNFIELD_TEST_TYPES:
        return "brownfield"
    return "greenfield"
