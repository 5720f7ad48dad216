from auth_gateway.infrastructure.security.passlib_hasher import PasslibPasswordHasher


def test_hash_and_verify():
    hasher = PasslibPasswordHasher()
    hashed = hasher.hash("correct horse battery staple")

    assert hashed != "correct horse battery staple"
    assert hasher.verify("correct horse battery staple", hashed) is True
    assert hasher.verify("wrong", hashed) is False


def test_unparseable_hash_is_a_mismatch():
    assert PasslibPasswordHasher().verify("anything", "not-a-bcrypt-hash") is False
