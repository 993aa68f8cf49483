"""AI Threat Modeler - guided STRIDE threat modeling with report generation."""

__version__ = "0.1.0"
