"""Line-delimited JSON protocol spoken between clients and the daemon.

Request:  {"Command": <name>, "Data": <payload or null>}
Response: {"Status": "success"|"error", "Message": <str>, "Data": <status>}

Field names are matched case-insensitively when decoding.
"""

import json
from typing import Any, List, NamedTuple, Optional

from queue_minion.domain.queue import Track, get_field

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

ADD_TRACK = "AddTrack"
ADD_TRACKS = "AddTracks"
PLAY = "Play"
PAUSE = "Pause"
NEXT = "Next"
PREVIOUS = "Previous"
JUMP_TO = "JumpTo"
GET_STATUS = "GetStatus"
CLEAR_QUEUE = "ClearQueue"
STOP = "Stop"


class ProtocolError(ValueError):
    """A request that can't be decoded or carries a malformed payload."""


class DaemonCommand(NamedTuple):
    command: str
    data: Any = None

    def to_dict(self) -> dict:
        return {"Command": self.command, "Data": self.data}


class DaemonResponse(NamedTuple):
    status: str
    message: Optional[str] = None
    data: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def success(cls, data: Optional[dict] = None, message: Optional[str] = None) -> "DaemonResponse":
        return cls(STATUS_SUCCESS, message, data)

    @classmethod
    def error(cls, message: str) -> "DaemonResponse":
        return cls(STATUS_ERROR, message)

    def to_dict(self) -> dict:
        # Optional fields are left out rather than sent as null
        response = {"Status": self.status}
        if self.message is not None:
            response["Message"] = self.message
        if self.data is not None:
            response["Data"] = self.data
        return response

    @classmethod
    def from_dict(cls, payload: Any) -> "DaemonResponse":
        if not isinstance(payload, dict):
            raise ProtocolError("Response must be a JSON object")
        status = get_field(payload, "Status")
        if not isinstance(status, str):
            raise ProtocolError("Response is missing Status")
        return cls(status, get_field(payload, "Message"), get_field(payload, "Data"))


def _decode_json(line: Any) -> Any:
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Invalid UTF-8: {e}") from e
    try:
        return json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e


def decode_command(line: Any) -> DaemonCommand:
    """Parse one request line.

    Raises:
        ProtocolError: If the line is not a JSON object with a string Command
    """
    payload = _decode_json(line)
    if not isinstance(payload, dict):
        raise ProtocolError("Request must be a JSON object")

    command = get_field(payload, "Command")
    if not isinstance(command, str) or not command:
        raise ProtocolError("Request is missing Command")

    return DaemonCommand(command, get_field(payload, "Data"))


def encode_command(command: DaemonCommand) -> bytes:
    return (json.dumps(command.to_dict()) + "\n").encode("utf-8")


def decode_response(line: Any) -> DaemonResponse:
    return DaemonResponse.from_dict(_decode_json(line))


def encode_response(response: DaemonResponse) -> bytes:
    return (json.dumps(response.to_dict()) + "\n").encode("utf-8")


def _require_object(data: Any, command: str) -> dict:
    if not isinstance(data, dict):
        raise ProtocolError(f"{command} requires a Data object")
    return data


def parse_track_payload(data: Any) -> Track:
    """AddTrack payload: {"Track": {...}}"""
    track = get_field(_require_object(data, ADD_TRACK), "Track")
    if track is None:
        raise ProtocolError("AddTrack requires Data.Track")
    try:
        return Track.from_dict(track)
    except ValueError as e:
        raise ProtocolError(str(e)) from e


def parse_tracks_payload(data: Any) -> List[Track]:
    """AddTracks payload: {"Tracks": [{...}, ...]}"""
    tracks = get_field(_require_object(data, ADD_TRACKS), "Tracks")
    if not isinstance(tracks, list):
        raise ProtocolError("AddTracks requires Data.Tracks to be a list")
    try:
        return [Track.from_dict(track) for track in tracks]
    except ValueError as e:
        raise ProtocolError(str(e)) from e


def parse_index_payload(data: Any) -> int:
    """JumpTo payload: {"Index": n}"""
    index = get_field(_require_object(data, JUMP_TO), "Index")
    if isinstance(index, bool) or not isinstance(index, int):
        raise ProtocolError("JumpTo requires an integer Data.Index")
    return index
