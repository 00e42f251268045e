"""Core module - provider-neutral models, mapping and infrastructure.

This module contains the canonical data models, field mapping, UBL
generation, credential storage and logging. It is intentionally
provider-agnostic.

Provider-specific logic (Parasut, Entegra, KolaySoft, etc.) belongs in /drivers/.
"""

__version__ = "0.1.0"
