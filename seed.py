"""
Idempotent seed-скрипт.
Запуск:
  python seed.py --reset         # дропнуть и пересоздать БД + демо-данные
  python seed.py --ensure-admin  # создать только пользователя admin@example.com/pass (как в DevConfig)
  python seed.py                 # мягкое наполнение недостающих данных (idempotent)
"""
from datetime import timedelta
import argparse

from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from domain.policy import Actor
from domain.store import SqlStore
from models import Role, TaskPriority, TaskStatus
from blueprints.classes.services import ClassService
from blueprints.tasks.services import TaskService
from blueprints.notifications.services import utc_today

DEMO_PASSWORD = "demo123"

DEMO_USERS = [
    {"name": "Admin", "email": "admin@example.com", "password": "pass", "role": Role.ADMIN},
    {"name": "Maria Teacher", "email": "teacher@example.com", "password": DEMO_PASSWORD, "role": Role.TEACHER},
    {"name": "Alice Student", "email": "alice@example.com", "password": DEMO_PASSWORD, "role": Role.STUDENT},
    {"name": "Bob Student", "email": "bob@example.com", "password": DEMO_PASSWORD, "role": Role.STUDENT},
]

DEMO_CLASS = "Algebra 9A"


def get_or_create_user(store: SqlStore, entry: dict):
    """Идемпотентное создание по email."""
    user = store.get_user_by_email(entry["email"])
    if user:
        return user, False
    user = store.insert_user(
        name=entry["name"],
        email=entry["email"],
        role=entry["role"].value,
        password_hash=generate_password_hash(entry["password"]),
    )
    return user, True


def ensure_admin() -> bool:
    _, created = get_or_create_user(SqlStore(db.session), DEMO_USERS[0])
    return created


def seed_demo():
    store = SqlStore(db.session)
    users = {entry["email"]: get_or_create_user(store, entry)[0] for entry in DEMO_USERS}
    teacher = Actor.from_user(users["teacher@example.com"])
    alice = users["alice@example.com"]
    bob = users["bob@example.com"]

    classes = ClassService(store)
    cls = next((s.classroom for s in classes.get_classes(teacher) if s.classroom.name == DEMO_CLASS), None)
    if cls is None:
        cls = classes.create_class(teacher, DEMO_CLASS, "Demo class with a few tasks")
        for student in (alice, bob):
            classes.join_class(Actor.from_user(student), cls.invite_code)

    tasks = TaskService(store)
    if tasks.get_tasks(teacher, class_id=cls.id).total:
        return

    today = utc_today()
    tasks.create_task(teacher, {
        "title": "Quadratic equations, ex. 1-10", "class_id": cls.id, "assignee_id": alice.id,
        "due_date": today + timedelta(days=3), "priority": TaskPriority.HIGH.value,
    })
    tasks.create_task(teacher, {
        "title": "Read chapter 4", "class_id": cls.id, "assignee_id": bob.id,
        "due_date": today + timedelta(days=7),
    })
    # просроченная: чтобы check-overdue было что показать
    tasks.create_task(teacher, {
        "title": "Homework from last week", "class_id": cls.id, "assignee_id": bob.id,
        "due_date": today - timedelta(days=2), "priority": TaskPriority.LOW.value,
    })
    done = tasks.create_task(teacher, {"title": "Intro quiz", "class_id": cls.id, "assignee_id": alice.id})
    tasks.update_task(Actor.from_user(alice), done.id, {"status": TaskStatus.COMPLETED.value})


# ---- main ----
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="drop + create + full seed (demo)")
    parser.add_argument("--ensure-admin", action="store_true", help="create only the admin user")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
            seed_demo()
            print("[seed] reset+seed complete")
            return

        if args.ensure_admin:
            db.create_all()
            created = ensure_admin()
            print("Admin created." if created else "Admin already exists.")
            return

        # режим по умолчанию — мягкое наполнение недостающих данных
        db.create_all()
        seed_demo()
        print("[seed] soft seed complete")


if __name__ == "__main__":
    main()
