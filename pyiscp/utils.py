class ValueRange(object):
    """Some command values are defined as a range of possible
    values, such as from 0 to 100. Both ends are included.
    """

    def __init__(self, start, end):
        self.start = start
        self.end = end

    def clamp(self, value):
        return max(self.start, min(self.end, value))


VOLUME_RANGE = ValueRange(0, 100)


def format_level(value, value_range=VOLUME_RANGE):
    """Render a level as the zero-padded decimal the receiver expects,
    e.g. 5 becomes "05". Out of range values are clamped first.
    """
    return str(value_range.clamp(int(value))).zfill(2)


def format_switch(on):
    return "01" if on else "00"
