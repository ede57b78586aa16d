"""
Signed token codec (PyJWT, HS256)
Expiry is checked against the injected clock, not the host clock.
"""

import calendar
import secrets

import jwt


class TokenCodec:
    def __init__(self, secret, clock, algorithm="HS256"):
        self.secret = secret
        self.clock = clock
        self.algorithm = algorithm

    def sign(self, payload, ttl):
        issued = self.clock.now()
        claims = dict(payload)
        claims["iat"] = calendar.timegm(issued.utctimetuple())
        claims["exp"] = calendar.timegm((issued + ttl).utctimetuple())
        # two tokens minted in the same second must still differ
        claims["jti"] = secrets.token_hex(8)
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token):
        """
        Return the payload of a well-signed, unexpired token.
        Raises jwt.InvalidTokenError (or a subclass) otherwise.
        """
        if not token or not isinstance(token, str):
            raise jwt.InvalidTokenError("Token missing")

        payload = jwt.decode(
            token,
            self.secret,
            algorithms=[self.algorithm],
            options={
                "require": ["exp", "iat"],
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )

        now = calendar.timegm(self.clock.now().utctimetuple())
        if now >= int(payload["exp"]):
            raise jwt.ExpiredSignatureError("Signature has expired")

        return payload
