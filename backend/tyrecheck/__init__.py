"""TyreCheck: tyre media to structured assessment pipeline"""
