import ulid


def new_id(prefix: str = "") -> str:
    """
    Genera un ID string ordenable por tiempo (ULID) con prefijo opcional,
    p.ej. new_id("ct_") -> "ct_01HV...".
    """
    return prefix + str(ulid.new())
