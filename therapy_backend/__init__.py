"""
Backend alert e promemoria per lo studio di terapia.

Struttura:
- config.py        : configurazione da env (.env via python-dotenv)
- db.py            : engine e sessioni SQLAlchemy
- models.py        : modelli ORM e enum
- evaluator.py     : finestre temporali delle scadenze (funzioni pure)
- alerts.py        : sweep scadenze, dedup, stato di lettura, area admin
- reminders.py     : promemoria appuntamenti con registro invii
- notifications.py : canale notifiche esterno (Resend / log)
- services.py      : CRUD minimo e prenotazione
- scheduler.py     : APScheduler in-process (opzionale)
- seed.py          : dati iniziali (terapeuti, clienti, assegnazioni)
- cli.py           : trigger esterni via CLI / cron
"""
