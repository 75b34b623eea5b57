from .bridge import LuaBridge, to_script_value
from .http import CompletionQueue, fetch_script, perform_request

__all__ = ["LuaBridge", "CompletionQueue", "fetch_script", "perform_request", "to_script_value"]
