"""
Maintenance commands for a MentorConnect database.

Usage:
    python -m mentorconnect.maintenance latest-booking
    python -m mentorconnect.maintenance wallet-status --email someone@example.com
    python -m mentorconnect.maintenance fix-wallets [--apply]
    python -m mentorconnect.maintenance add-money --email someone@example.com --amount 500
    python -m mentorconnect.maintenance approve-mentors
    python -m mentorconnect.maintenance seed-exam-prices
    python -m mentorconnect.maintenance smoke-signup --base-url http://localhost:8000
"""
import argparse
import logging
import secrets
import sys

import httpx
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mentorconnect import config, ledger
from mentorconnect.client import ApiError, MentorConnectClient
from mentorconnect.database import SessionLocal, engine
from mentorconnect.models import Base, BookingDB, ExamPriceDB, LockedTransactionDB, UserDB, WalletDB
from mentorconnect.routers.admin import upsert_exam_prices
from mentorconnect.schemas import ExamPriceIn

logger = logging.getLogger("mentorconnect.maintenance")

EXAM_PRICES = [
    ("SSC", "SSC CGL", 600, "Combined Graduate Level Examination"),
    ("SSC", "SSC CHSL", 550, "Combined Higher Secondary Level"),
    ("SSC", "SSC MTS", 450, "Multi Tasking Staff"),
    ("SSC", "SSC GD", 400, "General Duty Constable"),
    ("SSC", "SSC JE", 650, "Junior Engineer"),
    ("SSC", "SSC CPO", 700, "Central Police Organization"),
    ("UPSC", "UPSC CSE", 1000, "Civil Services Examination"),
    ("UPSC", "UPSC CDS", 800, "Combined Defence Services"),
    ("UPSC", "UPSC NDA", 750, "National Defence Academy"),
    ("UPSC", "UPSC CAPF", 850, "Central Armed Police Forces"),
    ("Banking", "IBPS PO", 700, "Probationary Officer"),
    ("Banking", "IBPS Clerk", 500, "Banking Clerk"),
    ("Banking", "IBPS SO", 750, "Specialist Officer"),
    ("Banking", "SBI PO", 750, "State Bank PO"),
    ("Banking", "SBI Clerk", 550, "State Bank Clerk"),
    ("Banking", "RBI Grade B", 900, "Reserve Bank Grade B"),
    ("Railways", "RRB NTPC", 600, "Non-Technical Popular Categories"),
    ("Railways", "RRB JE", 650, "Junior Engineer"),
    ("Railways", "RRB Group D", 450, "Group D Posts"),
    ("Railways", "RRB ALP", 550, "Assistant Loco Pilot"),
    ("State PSC", "UPPSC PCS", 800, "UP Provincial Civil Services"),
    ("State PSC", "BPSC", 750, "Bihar Public Service Commission"),
    ("State PSC", "MPSC", 750, "Maharashtra Public Service Commission"),
    ("State PSC", "RPSC", 700, "Rajasthan Public Service Commission"),
    ("Defense", "CDS", 800, "Combined Defence Services"),
    ("Defense", "AFCAT", 750, "Air Force Common Admission Test"),
    ("Defense", "Indian Navy", 750, "Indian Navy Entrance"),
    ("Insurance", "LIC AAO", 700, "Assistant Administrative Officer"),
    ("Insurance", "NIACL", 650, "National Insurance Company"),
    ("Teaching", "CTET", 500, "Central Teacher Eligibility Test"),
]


def find_user(db: Session, email: str):
    return db.execute(select(UserDB).where(UserDB.email == email.lower())).scalar_one_or_none()


def latest_booking(db: Session, args) -> int:
    book = db.execute(select(BookingDB).order_by(BookingDB.created_at.desc(), BookingDB.id.desc()).limit(1)).scalar_one_or_none()
    if book is None:
        print("No bookings found")
        return 0
    print(f"Booking #{book.id}")
    print(f"  Aspirant: {book.aspirant_name} <{book.aspirant_email}> (id {book.aspirant_id})")
    print(f"  Mentor:   {book.mentor_name} (id {book.achiever_id})")
    print(f"  When:     {book.date} {book.time} for {book.duration} min")
    print(f"  Status:   {book.status}, payment {book.payment_status} via {book.payment_method}")
    print(f"  Amount:   {book.amount} {config.CURRENCY}")
    lock = ledger.get_lock(db, book.id)
    if lock is not None:
        print(f"  Escrow:   {lock.status} ({lock.achiever_amount} mentor / {lock.platform_fee} platform)")
    return 0


def wallet_status(db: Session, args) -> int:
    user = find_user(db, args.email)
    if user is None:
        print(f"No user with email {args.email}")
        return 1
    wallet = ledger.get_wallet(db, user.id)
    if wallet is None:
        print(f"{user.email} has no wallet")
        return 0
    print(f"Wallet #{wallet.id} for {user.name} ({user.user_type})")
    print(f"  Balance: {wallet.balance}  Locked: {wallet.locked_balance}")
    print(f"  Earned:  {wallet.total_earnings}  Withdrawn: {wallet.total_withdrawn}")
    print(f"  Ledger:  {ledger.ledger_balance(wallet)} over {len(wallet.transactions)} transactions")
    for txn in wallet.transactions[-10:]:
        sign = "+" if txn.type == "credit" else "-"
        print(f"    {txn.timestamp:%Y-%m-%d %H:%M} {sign}{txn.amount:<7} {txn.source:<16} {txn.description}")
    return 0


def fix_wallets(db: Session, args) -> int:
    created = 0
    users_without_wallet = db.execute(
        select(UserDB).where(~select(WalletDB.id).where(WalletDB.user_id == UserDB.id).exists())
    ).scalars().all()
    for user in users_without_wallet:
        print(f"  missing wallet: {user.email}")
        if args.apply:
            ledger.get_or_create_wallet(db, user)
        created += 1

    mismatched = 0
    for wallet in db.execute(select(WalletDB).order_by(WalletDB.id)).scalars():
        expected = ledger.ledger_balance(wallet)
        locked = db.execute(
            select(func.coalesce(func.sum(LockedTransactionDB.amount), 0))
            .where(LockedTransactionDB.aspirant_id == wallet.user_id, LockedTransactionDB.status == "locked")
        ).scalar_one()
        if wallet.balance != expected or wallet.locked_balance != locked:
            mismatched += 1
            print(f"  wallet #{wallet.id}: balance {wallet.balance} -> {expected}, "
                  f"locked {wallet.locked_balance} -> {locked}")
            if args.apply:
                wallet.balance = expected
                wallet.locked_balance = locked

    if args.apply:
        db.commit()
        print(f"Created {created} wallet(s), reconciled {mismatched} wallet(s)")
    else:
        print(f"{created} missing wallet(s), {mismatched} mismatched wallet(s). Re-run with --apply to fix.")
    return 0


def add_money(db: Session, args) -> int:
    if args.amount <= 0:
        print("Amount must be greater than 0")
        return 1
    user = find_user(db, args.email)
    if user is None:
        print(f"No user with email {args.email}")
        return 1
    wallet = ledger.get_or_create_wallet(db, user)
    ledger.credit(db, wallet, args.amount, "topup", args.note)
    db.commit()
    print(f"Added {args.amount} to {user.email}, new balance {wallet.balance}")
    return 0


def approve_mentors(db: Session, args) -> int:
    pending = db.execute(
        select(UserDB).where(UserDB.user_type == "achiever", UserDB.approved.is_(False))
    ).scalars().all()
    for user in pending:
        user.approved = True
        user.approval_status = "approved"
        print(f"  approved {user.name} <{user.email}>")
    db.commit()
    print(f"Approved {len(pending)} mentor(s)")
    return 0


def seed_exam_prices(db: Session, args) -> int:
    prices = [
        ExamPriceIn(category=c, sub_category=s, hourly_rate=rate, description=d)
        for c, s, rate, d in EXAM_PRICES
    ]
    count = upsert_exam_prices(db, prices)
    db.commit()
    for category in sorted({p.category for p in prices}):
        print(f"{category}:")
        for p in prices:
            if p.category == category:
                print(f"  - {p.sub_category}: {p.hourly_rate}/hr")
    total = db.execute(select(func.count(ExamPriceDB.id))).scalar_one()
    print(f"Seeded {count} exam price(s), {total} in table")
    return 0


def smoke_signup(args) -> int:
    email = f"smoke_{secrets.token_hex(4)}@example.com"
    try:
        with MentorConnectClient(args.base_url) as client:
            health = client.health()
            print(f"Health: {health.get('status')}")
            data = client.signup("Smoke Test", email, "smoke-pass-123", user_type="aspirant")
            print(f"Signed up {data['user']['email']} as user {data['user']['id']}")
            me = client.login(email, "smoke-pass-123")
            print(f"Logged in, token issued for user {me['user']['id']}")
    except ApiError as e:
        print(f"Signup smoke test failed: {e}")
        return 1
    except httpx.HTTPError as e:
        print(f"Could not reach {args.base_url}: {type(e).__name__}")
        return 1
    print("Signup smoke test passed")
    return 0


DB_COMMANDS = {
    "latest-booking": latest_booking,
    "wallet-status": wallet_status,
    "fix-wallets": fix_wallets,
    "add-money": add_money,
    "approve-mentors": approve_mentors,
    "seed-exam-prices": seed_exam_prices,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mentorconnect.maintenance", description="MentorConnect maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("latest-booking", help="Show the most recent booking")

    p = sub.add_parser("wallet-status", help="Show a user's wallet and recent transactions")
    p.add_argument("--email", required=True)

    p = sub.add_parser("fix-wallets", help="Create missing wallets and reconcile balances")
    p.add_argument("--apply", action="store_true", help="Write fixes (default is a dry run)")

    p = sub.add_parser("add-money", help="Credit a user's wallet")
    p.add_argument("--email", required=True)
    p.add_argument("--amount", type=int, required=True)
    p.add_argument("--note", default="Manual credit")

    sub.add_parser("approve-mentors", help="Approve every pending achiever")
    sub.add_parser("seed-exam-prices", help="Insert or update the default exam prices")

    p = sub.add_parser("smoke-signup", help="Sign up a throwaway user against a running server")
    p.add_argument("--base-url", default="http://localhost:8000")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=config.LOG_LEVEL, force=True)

    if args.command == "smoke-signup":
        return smoke_signup(args)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        return DB_COMMANDS[args.command](db, args)
    except Exception as e:
        db.rollback()
        logger.exception("%s failed", args.command)
        print(f"Error: {e}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
