from linkgraph.fingerprint import fingerprint


def test_fingerprint_is_stable_sha1():
    assert fingerprint(b"hello") == "aaf4c61ddcc5e8a2dabede0f3b482cd9aea9434d"
    assert fingerprint(b"hello") == fingerprint(b"hello")


def test_fingerprint_changes_with_content():
    assert fingerprint(b"#+title: A\n") != fingerprint(b"#+title: B\n")
    assert fingerprint(b"") == "da39a3ee5e6b4b0d3255bfef95601890afd80709"
