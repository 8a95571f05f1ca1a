"""
SMTP relay transport (smtplib): connection security, AUTH, MAIL/RCPT/DATA.
"""
