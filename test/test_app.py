import io
import os
import shutil
import tempfile
import unittest
from decimal import Decimal
from unittest import mock

from app import create_app
from config import TestingConfig
from data_models import ChequeExtraction, MicrBlock
from db_models import STATUS_REVIEWED, Cheque, db
from processing.errors import TextRecognitionError


def make_extraction(needs_review=False, notes=()):
    return ChequeExtraction(
        payee_name="John Doe",
        payer_name="ACME TRADING SDN BHD",
        amount=Decimal("1250.00"),
        amount_in_words="ONE THOUSAND TWO HUNDRED FIFTY",
        cheque_date="15-06-2024",
        bank_branch_code_center="27-14401",
        micr=MicrBlock(raw="⑆123456⑆ 1440512⑈ 5140123456⑆ 10", cheque_no="123456", bank_code="1440",
                       branch_code="512", payer_account_no="5140123456", tran_code="10"),
        raw_text="PAY John Doe",
        needs_review=needs_review,
        review_notes=list(notes),
    )


class FakePipeline:

    def __init__(self, extraction=None, error=None):
        self.extraction = extraction or make_extraction()
        self.error = error
        self.calls = []

    def extract_cheque(self, image, mime_type=None):
        self.calls.append((image, mime_type))
        if self.error is not None:
            raise self.error
        return self.extraction


class ChequeAppTestCase(unittest.TestCase):

    def setUp(self):
        """Set up a test client with an in-memory database and a temporary upload folder."""
        self.test_dir = tempfile.mkdtemp()
        config = type('Config', (TestingConfig,), {'UPLOAD_FOLDER': self.test_dir})
        self.pipeline = FakePipeline()
        self.flask_app = create_app(config, pipeline=self.pipeline)
        self.app = self.flask_app.test_client()

        self.ctx = self.flask_app.app_context()
        self.ctx.push()
        db.create_all()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()
        shutil.rmtree(self.test_dir)

    def upload(self, filename='cheque.jpg', content_type='image/jpeg'):
        data = {'chequeImage': (io.BytesIO(b'image-bytes'), filename, content_type)}
        return self.app.post('/api/cheques/process', data=data, content_type='multipart/form-data')

    def store(self, extraction):
        cheque = Cheque.from_extraction(extraction, 'stored.jpg')
        db.session.add(cheque)
        db.session.commit()
        return cheque.id

    def test_process_cheque(self):
        """An uploaded image is extracted, stored and returned."""
        response = self.upload()
        self.assertEqual(response.status_code, 201)

        body = response.get_json()
        self.assertEqual(body['payeeName'], "John Doe")
        self.assertEqual(body['amount'], 1250.0)
        self.assertEqual(body['chequeDate'], "15-06-2024")
        self.assertEqual(body['micr']['bankCode'], "1440")
        self.assertFalse(body['needsReview'])
        self.assertTrue(body['imageUrl'].endswith('-cheque.jpg'))

        saved_path, mime_type = self.pipeline.calls[0]
        self.assertTrue(os.path.exists(saved_path))
        self.assertEqual(mime_type, 'image/jpeg')
        self.assertEqual(Cheque.query.count(), 1)

    def test_process_pdf(self):
        response = self.upload('cheque.pdf', 'application/pdf')
        self.assertEqual(response.status_code, 201)

    def test_process_without_file(self):
        response = self.app.post('/api/cheques/process', data={}, content_type='multipart/form-data')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['message'], "No image file uploaded.")

    def test_process_rejects_non_image(self):
        response = self.upload('notes.txt', 'text/plain')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.pipeline.calls, [])

    def test_process_extraction_failure(self):
        """A recognition failure is reported and nothing is kept."""
        self.pipeline.error = TextRecognitionError("Could not extract any text from the image.")
        response = self.upload()
        self.assertEqual(response.status_code, 422)
        self.assertIn("Could not extract any text", response.get_json()['error'])
        self.assertEqual(os.listdir(self.test_dir), [])
        self.assertEqual(Cheque.query.count(), 0)

    def test_webhook_only_for_flagged_cheques(self):
        self.flask_app.config['N8N_WEBHOOK_URL'] = 'http://hooks.local/review'
        with mock.patch('app.notify_review_needed') as notify:
            self.upload()
            notify.assert_not_called()

            self.pipeline.extraction = make_extraction(needs_review=True, notes=["MICR line unparsable."])
            response = self.upload()
            notify.assert_called_once()
            url, record = notify.call_args[0]
            self.assertEqual(url, 'http://hooks.local/review')
            self.assertEqual(record, response.get_json())

    def test_review_queue(self):
        self.store(make_extraction())
        flagged_id = self.store(make_extraction(needs_review=True, notes=["MICR line unparsable."]))

        response = self.app.get('/api/cheques/review')
        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual([item['id'] for item in body], [flagged_id])
        self.assertEqual(body[0]['reviewNotes'], ["MICR line unparsable."])

    def test_review_update(self):
        cheque_id = self.store(make_extraction(needs_review=True, notes=["MICR line unparsable."]))
        response = self.app.put(f'/api/cheques/review/{cheque_id}', json={
            'payeeName': "Jane Roe",
            'amount': 1300.5,
            'micr': {'branchCode': "513"},
        })
        self.assertEqual(response.status_code, 200)

        body = response.get_json()
        self.assertEqual(body['payeeName'], "Jane Roe")
        self.assertEqual(body['amount'], 1300.5)
        self.assertEqual(body['micr']['branchCode'], "513")
        self.assertEqual(body['micr']['bankCode'], "1440")
        self.assertEqual(body['payerName'], "ACME TRADING SDN BHD")
        self.assertFalse(body['needsReview'])
        self.assertEqual(body['reviewNotes'], [])
        self.assertEqual(body['status'], STATUS_REVIEWED)

        self.assertEqual(self.app.get('/api/cheques/review').get_json(), [])

    def test_review_update_invalid_date(self):
        cheque_id = self.store(make_extraction(needs_review=True))
        response = self.app.put(f'/api/cheques/review/{cheque_id}', json={'chequeDate': "2024-06-15"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(len(response.get_json()['details']), 1)

    def test_review_update_requires_object(self):
        response = self.app.put('/api/cheques/review/1', json=["payeeName"])
        self.assertEqual(response.status_code, 400)

    def test_review_update_unknown_cheque(self):
        response = self.app.put('/api/cheques/review/999', json={'payeeName': "Jane Roe"})
        self.assertEqual(response.status_code, 404)

    def test_uploaded_file_served(self):
        with open(os.path.join(self.test_dir, 'stored.jpg'), 'wb') as f:
            f.write(b'image-bytes')
        response = self.app.get('/uploads/stored.jpg')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, b'image-bytes')
        response.close()

    def test_health(self):
        response = self.app.get('/health')
        self.assertEqual(response.get_json(), {"status": "healthy"})


if __name__ == '__main__':
    unittest.main()
