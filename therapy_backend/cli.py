from __future__ import annotations

import argparse
import logging
from datetime import date, datetime

from therapy_backend.alerts import list_alerts, mark_alert_read, run_expiration_sweep
from therapy_backend.db import init_db
from therapy_backend.errors import NotFoundError
from therapy_backend.models import Audience
from therapy_backend.reminders import dispatch_due_reminders
from therapy_backend.seed import seed_base
from therapy_backend.services import book_appointment, cancel_appointment, list_clients_flat, list_therapists_flat


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("DB inizializzato e seed completato.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "clients":
        for c in list_clients_flat():
            print(f"{c['id']} | {c['last_name']} {c['first_name']} | {c['email'] or '-'}")
    elif args.entity == "therapists":
        for t in list_therapists_flat():
            print(f"{t['id']} | {t['last_name']} {t['first_name']} | {t['email'] or '-'}")


def cmd_sweep(args: argparse.Namespace) -> None:
    """Da lanciare via cron (es. una volta al giorno)."""
    now = date.fromisoformat(args.now) if args.now else None
    summary = run_expiration_sweep(now=now, workers=args.workers)
    print(f"Sweep: {summary.created} creati, {summary.skipped} già presenti, {summary.failed} falliti")


def cmd_reminders(args: argparse.Namespace) -> None:
    """Da lanciare via cron ogni pochi minuti."""
    now = datetime.fromisoformat(args.now) if args.now else None
    summary = dispatch_due_reminders(now=now)
    print(f"Promemoria: {summary.sent} inviati, {summary.skipped} saltati, {summary.failed} falliti")


def cmd_alerts(args: argparse.Namespace) -> None:
    audience = Audience(args.audience)
    alerts = list_alerts(args.subject_id, audience)
    if not alerts:
        print("Nessun alert.")
        return
    for a in alerts:
        stato = "letto" if a.read else "NUOVO"
        print(f"[{a.id}] {stato} | {a.effective_date.isoformat()} | {a.message}")


def cmd_read(args: argparse.Namespace) -> None:
    try:
        mark_alert_read(args.alert_id)
    except NotFoundError as e:
        print(str(e))
        raise SystemExit(1)
    print("Alert segnato come letto.")


def cmd_book(args: argparse.Namespace) -> None:
    start = datetime.fromisoformat(args.start)  # formato: 2026-01-14T10:30
    esito = book_appointment(
        client_id=args.client_id,
        scheduled_at=start,
        therapist_id=args.therapist_id,
        video_requested=args.video,
        note=args.note,
    )
    print(f"Appuntamento ID: {esito.appointment_id} ({esito.status.value})")
    print(f"Conferme inviate: {esito.reminders.sent}, fallite: {esito.reminders.failed}")


def cmd_cancel(args: argparse.Namespace) -> None:
    try:
        changed = cancel_appointment(args.appointment_id)
    except NotFoundError as e:
        print(str(e))
        raise SystemExit(1)
    print("Appuntamento annullato." if changed else "Appuntamento già annullato.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="therapy_alerts", description="CLI alert e promemoria (trigger esterni / cron)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log a livello DEBUG")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista entità")
    p_list.add_argument("entity", choices=["clients", "therapists"])
    p_list.set_defaults(func=cmd_list)

    p_sweep = sub.add_parser("sweep", help="Sweep scadenze delle assegnazioni")
    p_sweep.add_argument("--now", default=None, help="Data di riferimento ISO es: 2026-01-14")
    p_sweep.add_argument("--workers", type=int, default=None)
    p_sweep.set_defaults(func=cmd_sweep)

    p_rem = sub.add_parser("reminders", help="Invia i promemoria appuntamenti dovuti")
    p_rem.add_argument("--now", default=None, help="ISO datetime es: 2026-01-14T10:30")
    p_rem.set_defaults(func=cmd_reminders)

    p_alerts = sub.add_parser("alerts", help="Alert di un soggetto")
    p_alerts.add_argument("--subject-id", required=True)
    p_alerts.add_argument("--audience", choices=[a.value for a in Audience], default=Audience.CLIENTS.value)
    p_alerts.set_defaults(func=cmd_alerts)

    p_read = sub.add_parser("read", help="Segna un alert come letto")
    p_read.add_argument("--alert-id", required=True)
    p_read.set_defaults(func=cmd_read)

    p_book = sub.add_parser("book", help="Prenota appuntamento (invia la conferma)")
    p_book.add_argument("--client-id", required=True)
    p_book.add_argument("--therapist-id", default=None)
    p_book.add_argument("--start", required=True, help="ISO datetime es: 2026-01-14T10:30")
    p_book.add_argument("--note", default=None)
    p_book.add_argument("--video", action="store_true", help="Seduta in videochiamata")
    p_book.set_defaults(func=cmd_book)

    p_cancel = sub.add_parser("cancel", help="Annulla appuntamento (niente più promemoria)")
    p_cancel.add_argument("--appointment-id", required=True)
    p_cancel.set_defaults(func=cmd_cancel)

    return p


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()  # garantisce tabelle
    args.func(args)


if __name__ == "__main__":
    main()
