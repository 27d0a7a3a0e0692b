from controller.src.services.engine import PipelineEngine
from controller.src.services.executor import execute_step, build_step_env
from controller.src.services.log_collector import collect_logs, format_run_log
from controller.src.services.pipeline_parser import (
    parse_pipeline_config,
    parse_pipeline_dict,
    load_pipeline_file,
)
from controller.src.services.status_reporter import StatusReporter
from controller.src.services.substitution import (
    build_context,
    resolve,
    resolve_args,
    referenced_variables,
)

__all__ = [
    "PipelineEngine",
    "execute_step",
    "build_step_env",
    "collect_logs",
    "format_run_log",
    "parse_pipeline_config",
    "parse_pipeline_dict",
    "load_pipeline_file",
    "StatusReporter",
    "build_context",
    "resolve",
    "resolve_args",
    "referenced_variables",
]
