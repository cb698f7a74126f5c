from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

STATUS_PROCESSED = 'Processed'
STATUS_REVIEWED = 'Reviewed'


def _utcnow():
    return datetime.now(timezone.utc)


class Cheque(db.Model):
    __tablename__ = 'cheques'
    id = db.Column(db.Integer, primary_key=True)
    payee_name = db.Column(db.String(255), default='unknown')
    payer_name = db.Column(db.String(255), default='unknown')
    amount = db.Column(db.Numeric(14, 2), default=0)
    amount_in_words = db.Column(db.Text, default='unknown')
    cheque_date = db.Column(db.String(16), default='unknown')
    bank_branch_code_center = db.Column(db.String(16), default='unknown')
    micr_raw = db.Column(db.String(255), default='unknown')
    micr_cheque_no = db.Column(db.String(32), default='unknown')
    micr_bank_code = db.Column(db.String(32), default='unknown')
    micr_branch_code = db.Column(db.String(32), default='unknown')
    micr_payer_account_no = db.Column(db.String(64), default='unknown')
    micr_tran_code = db.Column(db.String(32), default='unknown')
    raw_text = db.Column(db.Text, nullable=False)
    needs_review = db.Column(db.Boolean, default=False)
    review_notes = db.Column(db.JSON, default=list)
    image_url = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(32), default=STATUS_PROCESSED)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    @classmethod
    def from_extraction(cls, extraction, image_url):
        return cls(
            payee_name=extraction.payee_name,
            payer_name=extraction.payer_name,
            amount=extraction.amount,
            amount_in_words=extraction.amount_in_words,
            cheque_date=extraction.cheque_date,
            bank_branch_code_center=extraction.bank_branch_code_center,
            micr_raw=extraction.micr.raw,
            micr_cheque_no=extraction.micr.cheque_no,
            micr_bank_code=extraction.micr.bank_code,
            micr_branch_code=extraction.micr.branch_code,
            micr_payer_account_no=extraction.micr.payer_account_no,
            micr_tran_code=extraction.micr.tran_code,
            raw_text=extraction.raw_text,
            needs_review=extraction.needs_review,
            review_notes=list(extraction.review_notes),
            image_url=image_url,
            status=STATUS_PROCESSED,
        )

    def apply_review(self, update):
        """Applies a ChequeReviewUpdate and closes the review."""
        changes = update.model_dump(exclude_unset=True)
        micr = changes.pop('micr', None) or {}
        for key, value in changes.items():
            if value is not None:
                setattr(self, key, value)
        for key, value in micr.items():
            if value is not None:
                setattr(self, 'micr_' + key, value)
        self.needs_review = False
        self.review_notes = []
        self.status = STATUS_REVIEWED

    def to_dict(self):
        return {
            "id": self.id,
            "payeeName": self.payee_name,
            "payerName": self.payer_name,
            "amount": float(self.amount or 0),
            "amountInWords": self.amount_in_words,
            "chequeDate": self.cheque_date,
            "bankBranchCodeCenter": self.bank_branch_code_center,
            "micr": {
                "raw": self.micr_raw,
                "chequeNo": self.micr_cheque_no,
                "bankCode": self.micr_bank_code,
                "branchCode": self.micr_branch_code,
                "payerAccountNo": self.micr_payer_account_no,
                "tranCode": self.micr_tran_code,
            },
            "rawText": self.raw_text,
            "needsReview": self.needs_review,
            "reviewNotes": list(self.review_notes or []),
            "imageUrl": self.image_url,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
