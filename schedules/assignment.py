"""
Resource assignment slots of a schedule.

A slot is either Assigned(id) or UNASSIGNED; code that reads a slot has to
handle both cases instead of testing for None.
"""


class Assigned:
    __slots__ = ('id',)

    def __init__(self, id):
        if id is None:
            raise ValueError('Assigned requires a resource id; use UNASSIGNED instead')
        self.id = id

    is_assigned = True

    def __eq__(self, other):
        return isinstance(other, Assigned) and self.id == other.id

    def __hash__(self):
        return hash(('assigned', self.id))

    def __repr__(self):
        return f"Assigned({self.id!r})"


class Unassigned:
    __slots__ = ()
    is_assigned = False

    def __eq__(self, other):
        return isinstance(other, Unassigned)

    def __hash__(self):
        return hash('unassigned')

    def __repr__(self):
        return 'UNASSIGNED'


UNASSIGNED = Unassigned()


def from_id(resource_id):
    """Wrap a nullable foreign key value."""
    return UNASSIGNED if resource_id is None else Assigned(resource_id)
