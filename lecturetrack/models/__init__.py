# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles
# (qr_codes.lecture_id → lectures.id, attendances.qr_code_id → qr_codes.id).

from lecturetrack.models.lecture import Lecture  # noqa: F401  doit précéder qr_code
from lecturetrack.models.qr_code import QRCode  # noqa: F401
from lecturetrack.models.attendance import Attendance  # noqa: F401
