"""
api/routes/v1/admin.py -- Account administration REST endpoints (ADMIN only).

Routes:
  GET   /api/v1/admin/accounts        -- list all accounts
  PATCH /api/v1/admin/accounts/{id}   -- set account_status

Security:
  Both routes depend on require_roles(ADMIN): 401 without a valid access
  token, 403 for any other role.
  Self-suspension is refused so an admin cannot lock themselves out.
  Setting a non-active status also revokes every session of the account;
  already issued access tokens stay valid until they expire.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import AccountPatch, AccountResponse
from auth.dependencies import rate_limit, require_roles
from auth.models import ROLE_ADMIN, STATUS_ACTIVE, AccessTokenClaims
from auth.ratelimit import ACTION_GENERAL
from auth.service import AuthService

router = APIRouter(dependencies=[Depends(rate_limit(ACTION_GENERAL))])

require_admin = require_roles(ROLE_ADMIN)


@router.get("/admin/accounts", response_model=list[AccountResponse])
def list_accounts(
    request: Request,
    identity: AccessTokenClaims = Depends(require_admin),
) -> list[AccountResponse]:
    """List every account, oldest first."""
    service: AuthService = request.app.state.auth_service
    return [AccountResponse.from_account(a) for a in service.accounts.list_accounts()]


@router.patch("/admin/accounts/{account_id}", response_model=AccountResponse)
def update_account(
    request: Request,
    account_id: int,
    body: AccountPatch,
    identity: AccessTokenClaims = Depends(require_admin),
) -> AccountResponse:
    """Suspend or reactivate an account. Reactivating also clears a failed-login lock."""
    if account_id == identity.user_id and body.account_status.value != STATUS_ACTIVE:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deactivation", "message": "You cannot deactivate your own account."},
        )
    service: AuthService = request.app.state.auth_service
    updated = service.set_account_status(account_id, body.account_status.value)
    if updated is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Account not found."},
        )
    return AccountResponse.from_account(updated)
