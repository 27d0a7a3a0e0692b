"""
Pipeline YAML parser and validator.
"""

import re
import yaml
from typing import List, Dict, Any, Optional

from controller.src.errors import SpecParseError
from controller.src.models import PipelineSpec, StepSpec

VARIABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

PIPELINE_KEYS = {"name", "steps", "substitutions", "timeout"}
STEP_KEYS = {"name", "tool", "image", "args", "env", "timeout", "allow_failure"}

def parse_pipeline_config(yaml_content: str) -> PipelineSpec:
    """Parse pipeline YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise SpecParseError(f"Invalid YAML: {e}")

    return validate_config(config)

def parse_pipeline_dict(config: Dict[str, Any]) -> PipelineSpec:
    """Validate pipeline configuration from dict."""
    return validate_config(config)

def load_pipeline_file(path: str) -> PipelineSpec:
    """Read and validate a pipeline file. The file is read exactly once."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise SpecParseError(f"Cannot read pipeline file {path}: {e.strerror}")

    return parse_pipeline_config(content)

def _as_string(value: Any, what: str) -> str:
    # YAML turns bare 8080 or 1.5 into numbers; accept those, reject the rest
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise SpecParseError(f"{what} must be a string")
    return str(value)

def _as_timeout(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise SpecParseError(f"{what} must be a positive number of seconds")
    return float(value)

def _check_keys(mapping: Dict[str, Any], allowed: set, what: str):
    unknown = sorted(str(k) for k in mapping if k not in allowed)
    if unknown:
        raise SpecParseError(f"{what} has unknown keys: {', '.join(unknown)}")

def validate_config(config: Optional[Dict[str, Any]]) -> PipelineSpec:
    """Validate pipeline configuration structure."""
    if not config:
        raise SpecParseError("Empty pipeline configuration")

    if not isinstance(config, dict):
        raise SpecParseError("Pipeline configuration must be a dictionary")

    _check_keys(config, PIPELINE_KEYS, "Pipeline")

    name = config.get("name", "Unnamed Pipeline")
    if not isinstance(name, str):
        raise SpecParseError("Pipeline 'name' must be a string")

    # Validate steps
    if "steps" not in config:
        raise SpecParseError("Pipeline must have 'steps' defined")

    steps = config["steps"]
    if not isinstance(steps, list):
        raise SpecParseError("Pipeline 'steps' must be a list")

    if len(steps) == 0:
        raise SpecParseError("Pipeline must have at least one step")

    validated_steps: List[StepSpec] = []
    for i, step in enumerate(steps):
        validated_steps.append(validate_step(step, i))

    timeout = None
    if config.get("timeout") is not None:
        timeout = _as_timeout(config["timeout"], "Pipeline 'timeout'")

    return PipelineSpec(
        name=name,
        steps=tuple(validated_steps),
        substitutions=validate_substitutions(config.get("substitutions")),
        timeout=timeout,
    )

def validate_substitutions(substitutions: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Validate the substitution defaults block."""
    if substitutions is None:
        return {}

    if not isinstance(substitutions, dict):
        raise SpecParseError("Pipeline 'substitutions' must be a dictionary")

    defaults = {}
    for key, value in substitutions.items():
        if not isinstance(key, str) or not VARIABLE_NAME.match(key):
            raise SpecParseError(f"Invalid substitution name: {key!r}")
        defaults[key] = _as_string(value, f"Substitution '{key}'")
    return defaults

def validate_step(step: Dict[str, Any], index: int) -> StepSpec:
    """Validate a single pipeline step."""
    if not isinstance(step, dict):
        raise SpecParseError(f"Step {index} must be a dictionary")

    _check_keys(step, STEP_KEYS, f"Step {index}")

    # 'image' is accepted for pipelines written with container steps in mind
    if "tool" in step and "image" in step:
        raise SpecParseError(f"Step {index} must set only one of 'tool' or 'image'")

    tool = step.get("tool", step.get("image"))
    if tool is None:
        raise SpecParseError(f"Step {index} missing 'tool'")

    if not isinstance(tool, str) or not tool.strip():
        raise SpecParseError(f"Step {index} 'tool' must be a non-empty string")

    name = step.get("name", f"step-{index}")
    if not isinstance(name, str):
        raise SpecParseError(f"Step {index} 'name' must be a string")

    args = step.get("args", [])
    if not isinstance(args, list):
        raise SpecParseError(f"Step {index} 'args' must be a list")

    validated_args = tuple(
        _as_string(arg, f"Step {index} arg {j}") for j, arg in enumerate(args)
    )

    env = step.get("env", {})
    if not isinstance(env, dict):
        raise SpecParseError(f"Step {index} 'env' must be a dictionary")

    validated_env = {}
    for key, value in env.items():
        if not isinstance(key, str) or not VARIABLE_NAME.match(key):
            raise SpecParseError(f"Step {index} has invalid env name: {key!r}")
        validated_env[key] = _as_string(value, f"Step {index} env '{key}'")

    timeout = None
    if step.get("timeout") is not None:
        timeout = _as_timeout(step["timeout"], f"Step {index} 'timeout'")

    allow_failure = step.get("allow_failure", False)
    if not isinstance(allow_failure, bool):
        raise SpecParseError(f"Step {index} 'allow_failure' must be a boolean")

    return StepSpec(
        name=name,
        tool=tool,
        args=validated_args,
        env=validated_env,
        timeout=timeout,
        allow_failure=allow_failure,
    )
