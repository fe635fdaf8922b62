# wallet_service.py
# Partner wallets: credited by paid claims, debited by withdrawals, adjusted by admins.

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

import crud
import schemas
from audit_service import AuditService
from errors import NotFound, ValidationFailed
from models import User, Wallet, WalletTransaction

log = logging.getLogger(__name__)


class WalletService:

    @staticmethod
    async def _find(db: AsyncSession, user_id: int) -> Optional[Wallet]:
        result = await db.execute(
            select(Wallet)
            .filter(Wallet.user_id == user_id)
            .options(selectinload(Wallet.transactions))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _ensure_wallet_id(db: AsyncSession, user_id: int) -> int:
        """Create the wallet row if missing, inside the caller's transaction."""
        result = await db.execute(select(Wallet.id).filter(Wallet.user_id == user_id))
        wallet_id = result.scalar_one_or_none()
        if wallet_id is not None:
            return wallet_id

        wallet = Wallet(user_id=user_id, balance=Decimal("0"), total_earned=Decimal("0"), total_withdrawn=Decimal("0"))
        db.add(wallet)
        await db.flush()
        return wallet.id

    @staticmethod
    async def get_or_create_wallet(db: AsyncSession, user: User) -> Wallet:
        wallet = await WalletService._find(db, user.id)
        if wallet is not None:
            return wallet
        await WalletService._ensure_wallet_id(db, user.id)
        await db.commit()
        log.info(f"Wallet created for user {user.id}")
        return await WalletService._find(db, user.id)

    @staticmethod
    async def credit(db: AsyncSession, user_id: int, amount: Decimal, description: str, reference_id: Optional[str] = None) -> None:
        """Atomic credit; the caller commits."""
        wallet_id = await WalletService._ensure_wallet_id(db, user_id)
        await db.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id)
            .values(balance=Wallet.balance + amount, total_earned=Wallet.total_earned + amount)
            .execution_options(synchronize_session=False)
        )
        db.add(WalletTransaction(
            wallet_id=wallet_id,
            type="credit",
            amount=amount,
            description=description,
            reference_id=reference_id,
        ))
        await db.flush()
        log.info(f"Wallet {wallet_id} credited {amount} ({reference_id})")

    @staticmethod
    async def withdraw(db: AsyncSession, user: User, amount: Decimal, description: Optional[str] = None) -> Wallet:
        """Conditional debit: succeeds only while balance covers the amount."""
        user_id = user.id
        wallet_id = await WalletService._ensure_wallet_id(db, user_id)
        result = await db.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id, Wallet.balance >= amount)
            .values(balance=Wallet.balance - amount, total_withdrawn=Wallet.total_withdrawn + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise ValidationFailed("Insufficient balance", code="insufficient_balance")

        db.add(WalletTransaction(
            wallet_id=wallet_id,
            type="debit",
            amount=amount,
            description=description or "Withdrawal",
        ))
        await db.commit()

        log.info(f"Wallet {wallet_id} debited {amount} by user {user_id}")
        await AuditService.log_action("withdraw", "wallet", wallet_id, user_id=user_id, new_value={"amount": str(amount)})
        return await WalletService._find(db, user_id)

    @staticmethod
    async def adjust(db: AsyncSession, payload: schemas.WalletAdjustment, actor: User) -> Wallet:
        """
        Manual admin credit or debit against any user's wallet.

        A debit never takes the balance below zero.
        """
        if await crud.get_user(db, payload.user_id) is None:
            raise NotFound("User not found")

        if payload.type == "credit":
            await WalletService.credit(db, payload.user_id, payload.amount, payload.description, payload.reference_id)
        else:
            wallet_id = await WalletService._ensure_wallet_id(db, payload.user_id)
            result = await db.execute(
                update(Wallet)
                .where(Wallet.id == wallet_id, Wallet.balance >= payload.amount)
                .values(balance=Wallet.balance - payload.amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise ValidationFailed("Insufficient balance", code="insufficient_balance")
            db.add(WalletTransaction(
                wallet_id=wallet_id,
                type="debit",
                amount=payload.amount,
                description=payload.description,
                reference_id=payload.reference_id,
            ))
        await db.commit()

        log.info(f"Wallet of user {payload.user_id}: manual {payload.type} {payload.amount} by admin {actor.id}")
        await AuditService.log_action(
            f"manual_{payload.type}", "wallet", payload.user_id, user_id=actor.id,
            new_value={"amount": str(payload.amount), "description": payload.description},
        )
        return await WalletService._find(db, payload.user_id)

    @staticmethod
    async def list_wallets(db: AsyncSession) -> List[Wallet]:
        result = await db.execute(
            select(Wallet).options(selectinload(Wallet.transactions)).order_by(Wallet.id)
        )
        return list(result.scalars().all())
