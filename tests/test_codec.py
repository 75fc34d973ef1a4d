from ghostroom.codec import decode, encode
from ghostroom.constants import B_MSG_CIPHERTEXT, B_MSG_ID, T_RECEIVE_MESSAGE
from ghostroom.envelope import make_envelope, validate_envelope


def test_codec_round_trip() -> None:
    env = make_envelope(
        T_RECEIVE_MESSAGE,
        src=b"hub",
        room="A1B2C3D4",
        body={B_MSG_ID: "m1", B_MSG_CIPHERTEXT: b"\x00\x01opaque"},
    )
    data = encode(env)
    decoded = decode(data)
    assert decoded == env
    validate_envelope(decoded)
