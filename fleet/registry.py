"""
Read-side view of depot resources at the moment of a scheduling decision.
"""
from .models import Bus, Driver, Conductor, RESOURCE_MODELS
from schedules.exceptions import NotFoundError


def list_assignable_buses(depot):
    """Active buses of the depot."""
    return Bus.objects.filter(depot=depot, status=Bus.STATUS_ACTIVE).order_by('number')


def list_assignable_drivers(depot):
    """Available drivers of the depot."""
    return Driver.objects.filter(depot=depot, availability=Driver.AVAILABLE).order_by('name')


def list_assignable_conductors(depot):
    """Available conductors of the depot."""
    return Conductor.objects.filter(depot=depot, availability=Conductor.AVAILABLE).order_by('name')


ASSIGNABLE_LISTS = {
    'bus': list_assignable_buses,
    'driver': list_assignable_drivers,
    'conductor': list_assignable_conductors,
}


def get_resource(resource_type, resource_id, depot=None, for_update=False):
    """
    Fetch a bus, driver or conductor by id.

    Args:
        resource_type: one of 'bus', 'driver', 'conductor'
        resource_id: primary key of the resource
        depot: restrict the lookup to this depot when given
        for_update: lock the row until the surrounding transaction ends

    Raises:
        NotFoundError: no such resource (in the depot)
    """
    model = RESOURCE_MODELS[resource_type]
    queryset = model.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    if depot is not None:
        queryset = queryset.filter(depot=depot)
    try:
        return queryset.get(pk=resource_id)
    except model.DoesNotExist:
        raise NotFoundError(resource_type, resource_id)


def is_assignable(resource):
    return resource.is_assignable


def resource_state(resource):
    """Status of a bus or availability of a staff member."""
    return resource.status if isinstance(resource, Bus) else resource.availability


def resource_label(resource):
    """Human readable name used in conflict messages."""
    if isinstance(resource, Bus):
        return f"Bus {resource.number}"
    if isinstance(resource, Driver):
        return f"Driver {resource.name}"
    return f"Conductor {resource.name}"
