import json
import random
from pathlib import Path

# Static catalog served by the auxiliary endpoints
CONFIG_DIR = Path(__file__).parent / "config"


def _load(name: str):
    with open(CONFIG_DIR / name, "r", encoding="utf-8") as f:
        return json.load(f)


LANGUAGES_CONFIG = _load("languages.json")
ROLEPLAYS_CONFIG = _load("roleplays.json")
TIPS_CONFIG = _load("tips.json")


def list_languages():
    return {
        'languages': LANGUAGES_CONFIG.get('languages', []),
        'levels': LANGUAGES_CONFIG.get('levels', []),
    }


def scenarios_for_level(level: str):
    """Roleplay scenarios for a level; unknown levels get the default level's set."""
    scenarios = ROLEPLAYS_CONFIG.get('scenarios', {})
    level_scenarios = scenarios.get(level)
    if level_scenarios is None:
        level_scenarios = scenarios.get(ROLEPLAYS_CONFIG.get('default_level', 'B1'), [])
    return {'scenarios': level_scenarios, 'currentLevel': level}


def random_tip(rng=random):
    return {'tip': rng.choice(TIPS_CONFIG['tips'])}
