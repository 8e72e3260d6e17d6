# Файл: subscription_engine/db/triggers.py
from sqlalchemy import DDL, event
from .billing.subscription_orm import SubscriptionORM
from .billing.history_orm import SubscriptionHistoryORM

# Каждая команда - отдельный DDL объект: asyncpg не выполняет несколько команд за раз.

# --- Терминальные статусы неизменяемы ---

create_terminal_guard_function_ddl = DDL("""
    CREATE OR REPLACE FUNCTION guard_terminal_subscription()
    RETURNS TRIGGER AS $$
    BEGIN
        IF OLD.status IN ('cancelled', 'expired') AND NEW.status <> OLD.status THEN
            RAISE EXCEPTION 'subscription %% is in terminal status %%', OLD.id, OLD.status
                USING ERRCODE = 'check_violation';
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql;
""")

drop_terminal_guard_trigger_ddl = DDL("""
    DROP TRIGGER IF EXISTS trg_subscriptions_terminal_guard ON subscriptions;
""")

create_terminal_guard_trigger_ddl = DDL("""
    CREATE TRIGGER trg_subscriptions_terminal_guard
    BEFORE UPDATE OF status ON subscriptions
    FOR EACH ROW
    EXECUTE FUNCTION guard_terminal_subscription();
""")


# --- История только дописывается ---

create_history_readonly_function_ddl = DDL("""
    CREATE OR REPLACE FUNCTION forbid_history_update()
    RETURNS TRIGGER AS $$
    BEGIN
        RAISE EXCEPTION 'subscription_history is append-only'
            USING ERRCODE = 'check_violation';
    END;
    $$ LANGUAGE plpgsql;
""")

drop_history_readonly_trigger_ddl = DDL("""
    DROP TRIGGER IF EXISTS trg_subscription_history_readonly ON subscription_history;
""")

create_history_readonly_trigger_ddl = DDL("""
    CREATE TRIGGER trg_subscription_history_readonly
    BEFORE UPDATE ON subscription_history
    FOR EACH ROW
    EXECUTE FUNCTION forbid_history_update();
""")


event.listen(SubscriptionORM.__table__, "after_create", create_terminal_guard_function_ddl.execute_if(dialect="postgresql"))
event.listen(SubscriptionORM.__table__, "after_create", drop_terminal_guard_trigger_ddl.execute_if(dialect="postgresql"))
event.listen(SubscriptionORM.__table__, "after_create", create_terminal_guard_trigger_ddl.execute_if(dialect="postgresql"))

event.listen(SubscriptionHistoryORM.__table__, "after_create", create_history_readonly_function_ddl.execute_if(dialect="postgresql"))
event.listen(SubscriptionHistoryORM.__table__, "after_create", drop_history_readonly_trigger_ddl.execute_if(dialect="postgresql"))
event.listen(SubscriptionHistoryORM.__table__, "after_create", create_history_readonly_trigger_ddl.execute_if(dialect="postgresql"))
