class CiRbacException(Exception):
    pass


class ConfigException(CiRbacException):
    pass


class ToolNotFoundException(CiRbacException):
    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"{tool} is not installed. Please install it before running this tool.")


class ResourceCreateException(CiRbacException):
    def __init__(self, *, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(f"Failed to create {kind} '{name}'{where}")


class TokenException(CiRbacException):
    pass
