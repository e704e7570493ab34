"""Credit package catalogue."""

from ..access import require_admin
from ..exceptions import NotFoundError, ValidationError
from ..models import CreditPackage

_EDITABLE_FIELDS = ('name', 'credits', 'price_kes', 'description', 'display_order', 'is_active')


def list_active_packages():
    return list(CreditPackage.objects.filter(is_active=True).order_by('display_order', 'name'))


def list_all_packages(caller):
    require_admin(caller)
    return list(CreditPackage.objects.order_by('display_order', 'name'))


def _validate_package_fields(data, partial=False):
    errors = []

    if 'name' in data or not partial:
        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            errors.append({'field': 'name', 'message': 'name is required.'})

    for field_name in ('credits', 'price_kes'):
        if field_name in data or not partial:
            value = data.get(field_name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                errors.append({'field': field_name, 'message': f'{field_name} must be a positive integer.'})

    if 'display_order' in data:
        value = data['display_order']
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append({'field': 'display_order', 'message': 'display_order must be an integer.'})

    if 'is_active' in data and not isinstance(data['is_active'], bool):
        errors.append({'field': 'is_active', 'message': 'is_active must be a boolean.'})

    if errors:
        raise ValidationError(
            message='Invalid credit package.',
            code='INVALID_PACKAGE',
            detail={'errors': errors},
        )


def create_package(caller, data):
    require_admin(caller)
    _validate_package_fields(data)

    return CreditPackage.objects.create(
        name=data['name'].strip(),
        credits=data['credits'],
        price_kes=data['price_kes'],
        description=data.get('description') or '',
        display_order=data.get('display_order', 0),
        is_active=True,
    )


def update_package(caller, package_id, data):
    require_admin(caller)
    _validate_package_fields(data, partial=True)

    try:
        package = CreditPackage.objects.get(pk=package_id)
    except CreditPackage.DoesNotExist:
        raise NotFoundError(
            message='Credit package not found',
            code='PACKAGE_NOT_FOUND',
            detail={'package_id': str(package_id)},
        )

    changed = [f for f in _EDITABLE_FIELDS if f in data]
    for field_name in changed:
        value = data[field_name]
        setattr(package, field_name, value.strip() if field_name == 'name' else value)
    if changed:
        package.save(update_fields=changed)
    return package
