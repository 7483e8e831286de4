"""Collection names in the document store."""

SUBJECTS = "subjects"
UNITS = "units"
STUDY_MATERIALS = "studyMaterials"
QUIZZES = "quizzes"
QUESTIONS = "questions"
QUIZ_QUESTIONS = "quizQuestions"
QUIZ_ATTEMPTS = "quizAttempts"
NOTIFICATIONS = "notifications"
NOTICES = "notices"
USERS = "users"
STUDENTS = "students"
PASSWORD_RESET_TOKENS = "passwordResetTokens"
