import atheris

SEGMENT_CHARS = "ab[] "


class EnhancedDataProvider(atheris.FuzzedDataProvider):
    def ConsumeRandomBytes(self) -> bytes:
        return self.ConsumeBytes(self.ConsumeIntInRange(0, self.remaining_bytes()))

    def ConsumeRandomString(self) -> str:
        return self.ConsumeUnicodeNoSurrogates(self.ConsumeIntInRange(0, self.remaining_bytes()))

    def ConsumeKeyPath(self, max_length: int = 16) -> str:
        # Mostly brackets and a couple of letters, so paths collide often.
        length = self.ConsumeIntInRange(0, max_length)
        return "".join(self.PickValueInList(SEGMENT_CHARS) for _ in range(length))
