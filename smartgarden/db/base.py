from sqlalchemy.orm import declarative_base

# Base shared by every ORM model
Base = declarative_base()
