from fastapi import APIRouter, status

from deps import CurrentAdminUserDep, CurrentUserDep, SessionDep
from schemas import Wallet, WalletAdjustment, WithdrawRequest
from wallet_service import WalletService

wallets_router = APIRouter(prefix="/wallets", tags=["wallets"])


@wallets_router.get("/me")
async def my_wallet(db_session: SessionDep, current_user: CurrentUserDep):
    wallet = await WalletService.get_or_create_wallet(db_session, current_user)
    return {"success": True, "data": Wallet.model_validate(wallet)}


@wallets_router.post("/withdraw")
async def withdraw(payload: WithdrawRequest, db_session: SessionDep, current_user: CurrentUserDep):
    wallet = await WalletService.withdraw(db_session, current_user, payload.amount, payload.description)
    return {"success": True, "message": "Withdrawal recorded", "data": Wallet.model_validate(wallet)}


@wallets_router.get("")
async def list_wallets(db_session: SessionDep, admin: CurrentAdminUserDep):
    wallets = await WalletService.list_wallets(db_session)
    return {"success": True, "count": len(wallets), "data": [Wallet.model_validate(w) for w in wallets]}


@wallets_router.post("/transactions", status_code=status.HTTP_201_CREATED)
async def add_transaction(payload: WalletAdjustment, db_session: SessionDep, admin: CurrentAdminUserDep):
    wallet = await WalletService.adjust(db_session, payload, admin)
    return {"success": True, "message": f"Manual {payload.type} recorded", "data": Wallet.model_validate(wallet)}
