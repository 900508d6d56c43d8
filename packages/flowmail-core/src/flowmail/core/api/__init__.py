"""Public, stable API surface for flowmail.

If you're writing plugins or embedding the mail step in your own host,
import from **`flowmail.core.api`**.

Everything outside this package is considered internal and may change without
notice, even in minor releases.
"""

from __future__ import annotations

# Connector contracts
from flowmail.core.connectors.base import ConnectorBase, ConnectorInit, MailTransport
# Runtime context
from flowmail.core.context import RunContext, new_run_id
# Common exceptions
from flowmail.core.exception import (
    ConfigurationBindingError,
    ConnectorError,
    DispatchError,
    MailValidationError,
    PluginLoadError,
    SpecError,
)
# Mail step core
from flowmail.core.mail import (
    MISSING_MANDATORY,
    MISSING_RECIPIENTS,
    MailConfig,
    MailInputs,
    build_message,
    execute_mail,
    parse_addresses,
    validate_config,
)
# Registries (steps/connectors)
from flowmail.core.registry.connectors import get_connector, list_connectors, register_connector
from flowmail.core.registry.steps import describe_step, get_step, list_steps, register_step
# Settings
from flowmail.core.runtime.settings import Settings, load_settings
# Flow specification (Pydantic models)
from flowmail.core.spec import (
    FlowMetaSpec,
    FlowSpec,
    JobSpec,
    MailResourceOptions,
    MemoryMailConfig,
    ResourceSpec,
    SmtpMailConfig,
    StateSpec,
    StepSpec,
)
# Run summary
from flowmail.core.observability import MailTally, RunSummary
# Step contract
from flowmail.core.steps.base import STEP_FAILED, STEP_SKIPPED, STEP_SUCCESS, Step, StepResult

__all__ = [
    # steps
    "Step",
    "StepResult",
    "STEP_SUCCESS",
    "STEP_SKIPPED",
    "STEP_FAILED",
    # context
    "RunContext",
    "new_run_id",
    # settings
    "Settings",
    "load_settings",
    # spec
    "FlowSpec",
    "FlowMetaSpec",
    "JobSpec",
    "StepSpec",
    "ResourceSpec",
    "StateSpec",
    "SmtpMailConfig",
    "MemoryMailConfig",
    "MailResourceOptions",
    # run summary
    "RunSummary",
    "MailTally",
    # connectors
    "ConnectorBase",
    "ConnectorInit",
    "MailTransport",
    # errors
    "SpecError",
    "ConfigurationBindingError",
    "MailValidationError",
    "ConnectorError",
    "DispatchError",
    "PluginLoadError",
    # mail
    "MailConfig",
    "MailInputs",
    "MISSING_MANDATORY",
    "MISSING_RECIPIENTS",
    "validate_config",
    "build_message",
    "parse_addresses",
    "execute_mail",
    # registries
    "register_step",
    "get_step",
    "list_steps",
    "describe_step",
    "register_connector",
    "get_connector",
    "list_connectors",
]
