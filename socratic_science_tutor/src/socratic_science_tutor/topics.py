"""
Science Topic Catalog

Static subject areas the tutor can teach. Each topic carries grade-level
expectations and a concept progression path used when building prompts.
Read-only for the lifetime of the process.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from socratic_science_tutor.errors import TopicNotFoundError

DEFAULT_GRADE = 6
DEFAULT_TOPIC_KEY = "solar-system"


@dataclass(frozen=True)
class Topic:
    """A named science subject area."""
    key: str
    display_name: str
    grade_expectations: Dict[int, List[str]]
    progression_path: List[str]
    starting_concepts: List[str] = field(default_factory=list)

    def expectations_for(self, grade: int) -> List[str]:
        """Expectations for a grade, falling back to the default grade's list."""
        if grade in self.grade_expectations:
            return self.grade_expectations[grade]
        return self.grade_expectations.get(DEFAULT_GRADE, [])


SCIENCE_TOPICS: Dict[str, Topic] = {
    "solar-system": Topic(
        key="solar-system",
        display_name="Solar System",
        starting_concepts=["what is the solar system", "planets", "the Sun"],
        progression_path=["planet types", "orbits", "moons", "asteroids", "gravity", "distance and scale"],
        grade_expectations={
            5: ["name planets", "understand Sun is a star", "day/night cycle"],
            6: ["planet order", "inner vs outer planets", "basic gravity"],
            7: ["orbital mechanics basics", "planet characteristics", "moons"],
            8: ["gravitational forces", "space exploration", "solar system formation"],
        },
    ),
    "human-body": Topic(
        key="human-body",
        display_name="Human Body",
        starting_concepts=["body systems", "organs", "how we stay alive"],
        progression_path=["circulatory system", "respiratory system", "digestive system", "nervous system", "skeletal system"],
        grade_expectations={
            5: ["major organs", "basic functions", "healthy habits"],
            6: ["organ systems", "how systems work together", "cells"],
            7: ["cellular processes", "system interactions", "homeostasis"],
            8: ["complex system interactions", "genetics basics", "disease and immunity"],
        },
    ),
    "ecosystems": Topic(
        key="ecosystems",
        display_name="Ecosystems",
        starting_concepts=["what is an ecosystem", "living things", "environment"],
        progression_path=["food chains", "food webs", "producers and consumers", "decomposers", "energy flow", "biomes"],
        grade_expectations={
            5: ["living vs non-living", "basic food chains", "habitats"],
            6: ["food webs", "producer/consumer/decomposer", "adaptation"],
            7: ["energy transfer", "ecosystem balance", "human impact"],
            8: ["biogeochemical cycles", "population dynamics", "biodiversity"],
        },
    ),
    "matter-chemistry": Topic(
        key="matter-chemistry",
        display_name="Matter & Chemistry",
        starting_concepts=["what is matter", "states of matter", "what things are made of"],
        progression_path=["solids liquids gases", "atoms", "molecules", "elements", "compounds", "chemical reactions"],
        grade_expectations={
            5: ["states of matter", "physical properties", "mixtures"],
            6: ["atoms and molecules", "elements", "physical vs chemical changes"],
            7: ["periodic table basics", "compounds", "simple reactions"],
            8: ["atomic structure", "chemical bonds", "reaction types"],
        },
    ),
    "forces-motion": Topic(
        key="forces-motion",
        display_name="Forces & Motion",
        starting_concepts=["what makes things move", "forces", "speed"],
        progression_path=["push and pull", "gravity", "friction", "acceleration", "Newton's laws", "momentum"],
        grade_expectations={
            5: ["push/pull forces", "gravity basics", "simple machines"],
            6: ["balanced/unbalanced forces", "speed and velocity", "friction"],
            7: ["Newton's laws", "acceleration", "force calculations"],
            8: ["momentum", "work and energy", "complex force interactions"],
        },
    ),
    "electricity": Topic(
        key="electricity",
        display_name="Electricity",
        starting_concepts=["what is electricity", "how we use electricity", "circuits"],
        progression_path=["electric charge", "circuits", "conductors and insulators", "current and voltage", "magnetism"],
        grade_expectations={
            5: ["static electricity", "simple circuits", "safety"],
            6: ["conductors/insulators", "series and parallel circuits", "switches"],
            7: ["current, voltage, resistance", "Ohm's law basics", "electromagnets"],
            8: ["electrical calculations", "electromagnetic spectrum", "generators"],
        },
    ),
    "weather-climate": Topic(
        key="weather-climate",
        display_name="Weather & Climate",
        starting_concepts=["weather vs climate", "what causes weather", "atmosphere"],
        progression_path=["water cycle", "air pressure", "wind", "clouds", "weather patterns", "climate zones"],
        grade_expectations={
            5: ["water cycle", "types of weather", "seasons"],
            6: ["atmosphere layers", "air pressure and wind", "cloud types"],
            7: ["weather systems", "climate factors", "severe weather"],
            8: ["global circulation", "climate change", "weather prediction"],
        },
    ),
    "cells-life": Topic(
        key="cells-life",
        display_name="Cells & Life",
        starting_concepts=["what are cells", "living things", "what makes something alive"],
        progression_path=["cell parts", "plant vs animal cells", "cell functions", "cell division", "genetics basics"],
        grade_expectations={
            5: ["cells are building blocks", "microscopes", "living characteristics"],
            6: ["cell organelles", "plant vs animal cells", "single vs multi-celled"],
            7: ["cell processes", "photosynthesis and respiration", "cell division"],
            8: ["DNA and genes", "protein synthesis basics", "heredity"],
        },
    ),
}


def get_topic(key: str) -> Topic:
    """Look up a topic by key."""
    try:
        return SCIENCE_TOPICS[key]
    except KeyError:
        raise TopicNotFoundError(f"Unknown topic: {key}") from None


def topic_keys() -> List[str]:
    return list(SCIENCE_TOPICS.keys())


def is_known_topic(key: str) -> bool:
    return key in SCIENCE_TOPICS
