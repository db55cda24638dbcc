# piggies/utils/user.py

def get_display_name(display_name: str = "", name: str = "", email: str = "", user_id: int = None) -> str:
    """
    Формирует отображаемое имя пользователя:
    1. Имя из анкеты (display_name).
    2. Имя от провайдера идентификации.
    3. Локальная часть email.
    4. Иначе - "User <id>".
    """
    if display_name and display_name.strip():
        return display_name.strip()
    if name and name.strip():
        return name.strip()
    if email and "@" in email:
        return email.split("@", 1)[0]
    if user_id is not None:
        return f"User {user_id}"
    return ""
