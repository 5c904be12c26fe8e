"""Tests for the error taxonomy."""

from metagraph.errors import (
    ErrorKind,
    InvalidParameterError,
    MetadataGraphError,
    NotAuthorizedError,
    PropertyServerError,
)


class TestErrors:
    """Tests for error kinds and serialization."""

    def test_kinds(self):
        assert InvalidParameterError("x").kind == ErrorKind.INVALID_PARAMETER
        assert NotAuthorizedError("x").kind == ErrorKind.NOT_AUTHORIZED
        assert PropertyServerError("x").kind == ErrorKind.PROPERTY_SERVER
        assert isinstance(PropertyServerError("x"), MetadataGraphError)

    def test_to_dict(self):
        error = InvalidParameterError(
            "Unknown element type Spaceship", guid="g-1", parameter_name="type_name"
        )
        assert error.to_dict() == {
            "kind": "invalid_parameter",
            "message": "Unknown element type Spaceship",
            "guid": "g-1",
            "parameterName": "type_name",
        }
        assert str(error) == "Unknown element type Spaceship"

    def test_not_authorized_carries_user(self):
        error = NotAuthorizedError("denied", user_id="visitor", guid="g-1")
        assert error.user_id == "visitor"
        assert error.guid == "g-1"
        assert error.progress is None
