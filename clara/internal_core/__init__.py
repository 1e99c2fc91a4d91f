from .config import ClaraConfig, load_config
from .source_handles import materialize_source, release_source

__all__ = ["ClaraConfig", "load_config", "materialize_source", "release_source"]
