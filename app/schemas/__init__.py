import importlib
import inspect
import pkgutil
import sys

from pydantic import BaseModel

# Re-export the __all__ of every schema module in this package
for module_info in pkgutil.iter_modules(__path__):
    if module_info.name.startswith("_"):
        continue

    module = importlib.import_module(f"{__name__}.{module_info.name}")
    if not hasattr(module, "__all__"):
        continue

    globals().update({name: getattr(module, name) for name in module.__all__})


# Resolve string annotations between schema modules
current_module = sys.modules[__name__]
for name, obj in inspect.getmembers(current_module, inspect.isclass):
    if issubclass(obj, BaseModel) and obj.__module__.startswith(__name__):
        try:
            obj.model_rebuild()
        except Exception as e:
            raise RuntimeError(f"Failed to rebuild {name}: {e}") from e
