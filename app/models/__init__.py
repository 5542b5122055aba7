"""Schema models for the NLS Integrator."""
from app.models.schemas import (
    SubjectType,
    GradeType,
    IntegrationPhase,
    IntegrationRequest,
    ActivityIntegration,
    GeneratedContent,
    IntegrationOptions,
    IntegrationOptionsResponse,
    IntegrationStatusResponse,
    HealthCheckResponse,
)

__all__ = [
    # Enums
    "SubjectType",
    "GradeType",
    "IntegrationPhase",
    "IntegrationRequest",
    # Generated content
    "ActivityIntegration",
    "GeneratedContent",
    "IntegrationOptions",
    # Responses
    "IntegrationOptionsResponse",
    "IntegrationStatusResponse",
    "HealthCheckResponse",
]
