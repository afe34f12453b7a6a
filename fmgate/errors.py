# SPDX-License-Identifier: Apache-2.0
"""
Request and response error families.

Request errors reject a malformed or unsupported request before any engine
call and surface to the client as HTTP 400. Response errors are the rare
failures that abort an already accepted request (HTTP 500 on serialization
failure). Generation errors raised by an engine are not in either family:
they are classified into a finish reason (see ``fmgate.failures``).
"""


class RequestError(Exception):
    """Base class for client-facing request errors."""

    status_code = 400
    reason = "Bad request."

    def __init__(self, reason: str | None = None):
        if reason is not None:
            self.reason = reason
        super().__init__(self.reason)


class NonConformingBody(RequestError):
    reason = "Request body does not conform to expected standard."


class InvalidMessageRole(RequestError):
    reason = (
        "An invalid message role was given. These must be either 'system', "
        "'user', 'assistant', or 'tool' (with a `tool_call_id`)."
    )


class InvalidModel(RequestError):
    reason = "The requested model does not exist."


class NoPromptOrMessages(RequestError):
    reason = "One of `messages` or `prompt` is required."


class SchemaError(RequestError):
    """A JSON schema in the request could not be converted."""

    reason = "The supplied JSON schema is malformed."


class ResponseError(Exception):
    """Base class for errors raised while producing a response."""

    status_code = 500

    def __init__(self, description: str):
        self.description = description
        super().__init__(description)


class SerializationError(ResponseError):
    """The response payload could not be serialized to JSON."""


class MissingResponseSchema(ResponseError):
    """A ``json_schema`` response format was requested without a schema body."""

    def __init__(self, description: str = "response_format json_schema requires a `schema`."):
        super().__init__(description)
