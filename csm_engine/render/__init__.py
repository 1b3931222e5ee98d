"""
The renderer reads versioned templates, substitutes tokens and deserializes
the result
"""

# Local
from .renderer import (
    ModuleRenderer,
    TemplateRenderer,
    TokenRenderer,
    parse_objects,
)
from .substitution import Substitutions, Token, common_substitutions, resolve_tokens
from .template_store import FileTemplateStore, TemplateStore
