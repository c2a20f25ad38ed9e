import yaml
from typing import Dict

from loadtester import config


def sample_profile(url: str, method: str = config.DEFAULT_METHOD) -> Dict:
    """
    Starter profile using the web tool's form defaults.
    Edit the run section before pointing it at anything you do not own.
    """
    return {
        "name": "repeated-get",
        "request": {
            "url": url,
            "method": method,
            "headers": [
                {"key": "accept", "value": "application/json"},
            ],
            "body": "",
        },
        "run": {
            "repetitions": config.DEFAULT_REPETITIONS,
            "delay_ms": config.DEFAULT_DELAY_MS,
            "concurrency": config.DEFAULT_CONCURRENCY,
        },
    }


def write_profile(profile: Dict, out_path: str):
    with open(out_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(profile, f, sort_keys=False)
