"""
调用者身份解析 + 统一授权检查。

身份签发在外部 auth provider，这里只做两件事：
1. BearerTokenAuthentication：把 `Authorization: Bearer <token_identifier>` 解析成 User（或 None）
2. require_caller / require_role：每个需要权限的 service 入口第一行调用，
   不在各个调用点重复实现 admin 检查。
"""

from rest_framework.authentication import BaseAuthentication, get_authorization_header

from .exceptions import ForbiddenError, NotFoundError, UnauthenticatedError
from .models import User

ROLE_ADMIN = 'admin'
HOSPITAL_ROLES = ('hospital', 'hospital_staff')


class BearerTokenAuthentication(BaseAuthentication):
    keyword = b'bearer'

    def authenticate(self, request):
        auth = get_authorization_header(request).split()
        if len(auth) != 2 or auth[0].lower() != self.keyword:
            return None

        token = auth[1].decode('utf-8', errors='replace')
        user = User.objects.filter(token_identifier=token).first()
        if user is None:
            return None
        return user, token

    def authenticate_header(self, request):
        return 'Bearer'


def require_caller(caller):
    """返回可用的调用者；未登录 → 401，账号被停用 → 403。"""
    if caller is None:
        raise UnauthenticatedError(message='Must be signed in')
    if not caller.is_active:
        raise ForbiddenError(message='Your account has been deactivated', code='ACCOUNT_DISABLED')
    return caller


def require_role(caller, *roles):
    caller = require_caller(caller)
    if caller.account_type not in roles:
        if roles == (ROLE_ADMIN,):
            raise ForbiddenError(message='Admin access required', code='ADMIN_REQUIRED')
        raise ForbiddenError(
            message=f"This action requires one of the roles: {', '.join(roles)}",
            code='ROLE_REQUIRED',
            detail={'required_roles': list(roles), 'account_type': caller.account_type},
        )
    return caller


def require_admin(caller):
    return require_role(caller, ROLE_ADMIN)


def require_supplier_member(caller):
    """调用者必须挂在某个 supplier 上（supplier 账号，或拥有 supplier 的 admin）。"""
    caller = require_caller(caller)
    if caller.account_type not in ('supplier', ROLE_ADMIN) or caller.supplier_id is None:
        raise ForbiddenError(message='Supplier access required', code='SUPPLIER_REQUIRED')
    if caller.supplier is None:
        raise NotFoundError(message='Supplier account not found', code='SUPPLIER_NOT_FOUND')
    return caller.supplier


def require_hospital_member(caller):
    caller = require_caller(caller)
    if caller.account_type not in HOSPITAL_ROLES + (ROLE_ADMIN,) or caller.hospital_id is None:
        raise ForbiddenError(message='Hospital access required', code='HOSPITAL_REQUIRED')
    if caller.hospital is None:
        raise NotFoundError(message='Hospital account not found', code='HOSPITAL_NOT_FOUND')
    return caller.hospital


def resolve_supplier_scope(caller, supplier_id=None):
    """
    Ledger 读路径的作用域规则。

    - supplier 只能读自己的 supplier（传了别人的 supplier_id → 403）
    - admin 可以读任何 supplier，但必须显式传 supplier_id
    返回 supplier_id。
    """
    caller = require_caller(caller)

    if caller.is_admin:
        if supplier_id is not None:
            return supplier_id
        if caller.supplier_id is not None:
            return caller.supplier_id
        raise ForbiddenError(
            message='supplier_id is required for admin reads',
            code='SUPPLIER_ID_REQUIRED',
        )

    if caller.account_type != 'supplier':
        raise ForbiddenError(message='Only suppliers have credit balances', code='SUPPLIER_REQUIRED')
    if caller.supplier_id is None:
        raise NotFoundError(message='Supplier account not found', code='SUPPLIER_NOT_FOUND')
    if supplier_id is not None and str(supplier_id) != str(caller.supplier_id):
        raise ForbiddenError(
            message="Cannot view other supplier's credits",
            code='NOT_OWNER',
        )
    return caller.supplier_id
