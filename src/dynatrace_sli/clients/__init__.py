from dynatrace_sli.clients.dynatrace import DynatraceClient

__all__ = ["DynatraceClient"]
