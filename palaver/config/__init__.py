"""
Palaver Configuration

Database-driven bot configuration with MongoDB.
"""

from .loaders import (
    ConnectorConfigurationLoader,
    FileConnectorConfigurationLoader,
    MemoryConnectorConfigurationLoader,
)
from .reconcile import merge_application_configuration, reconcile_connector_configuration
from .schemas import (
    NONE_CONNECTOR_TYPE,
    REST_CONNECTOR_TYPE,
    AnswerConfigurationType,
    AppSettings,
    BotApplicationConfiguration,
    ConnectorConfiguration,
    ScriptAnswerConfiguration,
    ScriptAnswerVersionedConfiguration,
    SimpleAnswer,
    SimpleAnswerConfiguration,
    StoryDefinitionConfiguration,
)
from .service import BotConfigurationStore, ConfigurationService

__all__ = [
    "NONE_CONNECTOR_TYPE",
    "REST_CONNECTOR_TYPE",
    "AnswerConfigurationType",
    "AppSettings",
    "BotApplicationConfiguration",
    "BotConfigurationStore",
    "ConfigurationService",
    "ConnectorConfiguration",
    "ConnectorConfigurationLoader",
    "FileConnectorConfigurationLoader",
    "MemoryConnectorConfigurationLoader",
    "ScriptAnswerConfiguration",
    "ScriptAnswerVersionedConfiguration",
    "SimpleAnswer",
    "SimpleAnswerConfiguration",
    "StoryDefinitionConfiguration",
    "merge_application_configuration",
    "reconcile_connector_configuration",
]
