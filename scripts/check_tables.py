from eventhub.config import settings
import psycopg2

EXPECTED = {
    "events",
    "event_types",
    "event_event_types",
    "participations",
    "users",
    "user_interested_event_types",
    "bans",
}


def main():
    conn = psycopg2.connect(settings.DATABASE_URL)
    cur = conn.cursor()
    cur.execute("select tablename from pg_tables where schemaname='public'")
    tables = {row[0] for row in cur.fetchall()}
    print('public tables:', sorted(tables))
    missing = EXPECTED - tables
    if missing:
        print('missing tables:', sorted(missing))
    cur.execute(
        "select indexname from pg_indexes where indexname = 'uq_participations_active_user_event'"
    )
    print('active participation index:', 'present' if cur.fetchone() else 'MISSING')
    cur.close()
    conn.close()


if __name__ == '__main__':
    main()
